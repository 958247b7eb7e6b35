"""
M365 Public Group Remediation
=============================
A scheduled compliance sweep: finds Microsoft 365 unified groups with Public
visibility, applies a corrective sensitivity label to each, and leaves an
append-only evidence trail for every action.

Writes are limited to label assignment; see safety.guardian.
"""

__version__ = "1.0.0"
__author__ = "M365 Public Group Remediation"
