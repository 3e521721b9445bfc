"""
Shared layout constants for the auto-layout solver and the default grid.
Same node size in both so a grid-placed node and a solver-placed node occupy the same box.
"""

# Node card dimensions
NODE_W = 180
NODE_H = 80

# Solver spacing: between siblings in a layer, between layers
NODE_SEP = 50
RANK_SEP = 80

# Canvas origin for solver output and default grid
PADDING = 100

# Default grid for nodes that have no stored position yet
GRID_H_GAP = 80
GRID_V_GAP = 60
GRID_NODES_PER_ROW = 4
