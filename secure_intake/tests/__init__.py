# secure_intake/tests/__init__.py
"""
Secure Intake: Test Suite

Run all tests:
    pytest secure_intake/tests

Test coverage:
    - Request IDs and normalization
    - Classical / hybrid sealing and the shared decrypt path
    - Seal policy: strict mode, downgrade classification
    - Capability cache, pending store, rate limiter
    - End-to-end submission flows against a mock collector
"""
