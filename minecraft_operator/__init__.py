"""
Minecraft Operator — keeps `Minecraft` custom resources in sync with a
StatefulSet, a Service and a PersistentVolumeClaim per instance.
"""

__version__ = "0.1.0"
