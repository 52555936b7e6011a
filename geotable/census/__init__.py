"""
Census geodata binning.

Joins attribute tables onto tract polygons, classifies a measure into
bins and burns the classes onto a regular grid.
"""
