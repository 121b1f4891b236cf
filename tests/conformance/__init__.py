"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the token bank.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. debt_shares.py - Debt-share accounting laws
2. deposit_withdraw.py - Depositors never get back more than they put in
3. atomicity.py - All-or-nothing operations and reentrancy rejection
4. interest_curve.py - Shape of the utilization rate curve

These tests use hypothesis for property-based testing.
"""
