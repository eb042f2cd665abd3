"""
Error taxonomy shared by devices, stages and the pipeline orchestrator.

Keep this module dependency-light (no torch) so the emulator and the pipeline
can raise typed errors without pulling GPU runtime requirements.

The split follows what a caller has to do about the failure:
  - ConfigurationError: fix the call (shapes, dtypes, kernel width, params)
  - AllocationError: reduce the batch / free device memory
  - TransferError: host<->device copy failed (size mismatch or transport)
  - LaunchError: the device rejected or faulted a parallel dispatch
"""

from __future__ import annotations


class SobelError(RuntimeError):
    pass


class ConfigurationError(SobelError):
    pass


class AllocationError(SobelError):
    pass


class TransferError(SobelError):
    pass


class LaunchError(SobelError):
    pass


__all__ = ["SobelError", "ConfigurationError", "AllocationError", "TransferError", "LaunchError"]
