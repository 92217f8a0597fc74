"""
Courseboard Test Suite
======================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks (no external dependencies)
- tests/unit/domain/   : Pure domain model tests
- tests/integration/   : Tests against a real database (SQLite, PostgreSQL via testcontainers)

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test business logic
- Integration tests: Slower, test real infrastructure interactions
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
