"""
V1TA Privacy Core
=================
Privacy computation orchestration for V1TA lending positions.

Provides:
- AES-GCM encryption of position fields and fixed-width amount encoding
- Privacy-level policy validation and privacy-level migration
- Submission and lifecycle tracking of confidential (MXE) computations
- Integration status reporting
"""
