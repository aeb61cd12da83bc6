"""
Booking Service Tests

Unit tests run without PostgreSQL, Redis or the WhatsApp API: storage is
replaced by the in-memory fakes in tests/fakes.py and HTTP routes are driven
through FastAPI's TestClient with dependency overrides.

Running Tests:
    # Run all tests
    pytest tests/ -v

    # Run one module
    pytest tests/unit/test_reservations.py -v

Test Coverage:
    - Time zone conversion and slot generation
    - Reservations, conflicts and the status graph
    - Chat sessions and the conversation state machine
    - Webhook parsing, signatures and dispatch
    - HTTP routes, error envelope and rate limiting
"""
