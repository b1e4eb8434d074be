"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Value is only redistributed; escrow holds the stakes at risk
2. atomicity.py - All-or-nothing operations, including refused payouts
3. reentrancy.py - No guarded operation nests inside another
4. settlement.py - One-shot funding and settlement, amount-due monotonicity
5. determinism.py - Reproducible behavior

These tests use hypothesis for property-based testing.
"""
