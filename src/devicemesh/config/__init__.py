"""
Configuration for devicemesh: environment lookup, settings file, logging.

Import ``MeshConfig`` from ``devicemesh.config.mesh_config``.
"""
