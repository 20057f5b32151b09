"""
IAM policy primitives: pattern matching, policy parsing, condition
evaluation and organization policy filtering.

Submodules are imported directly (``accessmap.iam.patterns`` ...); this
package does not re-export them because ``accessmap.models`` depends on
``policy_parser`` and must be importable first.
"""
