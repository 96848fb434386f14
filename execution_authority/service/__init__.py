"""
Services behind the verdict gate: risk classification, policy evaluation and
the audit/proof log.
"""
