"""
Venue identity resolution.

Responsibilities:
- Normalise free-text venue names and addresses.
- Score catalog search candidates with edit-distance similarity.
- Pick at most one confident canonical venue and build its deep link.
- Keep "no results", "no confident match" and upstream failures apart.
"""
