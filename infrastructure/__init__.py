"""
Infrastructure Package
======================
Storage and audit trail for the controller.
"""
