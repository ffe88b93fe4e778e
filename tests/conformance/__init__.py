"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the stable-unit engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - A failed operation leaves ledgers, tokens and events untouched
2. reentrancy.py - One global guard serializes every mutating call
3. solvency.py - Health-factor gate, no-debt sentinel and liquidation monotonicity
4. conversion.py - USD / token conversions round down and nearly invert
5. state_machine.py - Conservation under arbitrary operation sequences

These tests use hypothesis for property-based testing.
"""
