"""
Unit Tests for Engine Bridge

Running Tests:
    # Run all tests
    pytest tests/

    # Run specific test file
    pytest tests/test_protocol.py

    # Run specific test
    pytest tests/test_pool.py::TestEngineSelector::test_sequential_wraps

Dependencies:
    - pytest: Test framework

Adapter tests spawn tests/fixtures/fake_uci_engine.py with the running
interpreter, so no real engine binary is needed.
"""
