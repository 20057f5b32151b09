"""
accessmap - AWS access graph and authorization evaluator.

Answers "who can access this resource?" and "how can this principal reach
it?" from a collected snapshot of IAM, resource and organization policies.
"""

__version__ = "0.1.0"
