"""categories/ -- Blog-category tree storage.

Layer rule: categories/ does not import from api/ or auth/.
"""
