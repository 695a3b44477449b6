"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Session record codec and lock transitions
    - In-memory store CAS and TTL semantics
    - Coordinator lock / update protocol
    - Configuration, logging and event sinks
    - Redis store (integration, opt-in via SESSIONMESH_TEST_REDIS_URL)
"""
