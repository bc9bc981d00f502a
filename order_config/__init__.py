"""
Order configuration selector.

Conditional option-selection and submission engine for a multi-level
order questionnaire: declarative option groups, branch exclusivity,
applicability-aware validation and a two-phase submission flow.
"""

__version__ = "1.0.0"
