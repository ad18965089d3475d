"""
Alignment and filtering of captured sensor windows.

Accelerometer and gyroscope buffers are low-pass filtered per axis, joined on
their common timestamps and shaped into the fixed (200, 6) feature matrix the
similarity model consumes.
"""
