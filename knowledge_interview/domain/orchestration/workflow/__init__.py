# Interview turn workflow: pure transitions (transitions.py), the effect
# executor (workflow_engine.py) and the prompt, parsing and retry helpers
# the effects use.
