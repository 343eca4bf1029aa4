"""
RecordFlow - Record Review Workflow Service

Approval workflow, resource-adjustment requests, audit log and
field-level changelog for reviewed business records.
"""

__version__ = "1.0.0"
