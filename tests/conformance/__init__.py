"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the collateral engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_atomicity.py - Failed operations leave no trace
2. test_solvency.py - Collateral value covers debt under any operation sequence
3. test_non_negative.py - No position ever goes negative
4. test_idempotent_reads.py - Reads are pure functions of committed state
5. test_reentrancy.py - Nested operations are rejected and the lock is released

These tests use hypothesis for property-based and stateful testing.
"""
