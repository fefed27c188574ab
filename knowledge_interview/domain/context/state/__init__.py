# Session state = everything needed to resume or audit an interview tab:
# the workflow state, the answered turns, the question awaiting an answer,
# the running context and the skills/workflows found so far.
#
# The registry owns the live copies. Callers work on drafts and commit them
# only when a step succeeds.
