# This module handles interview context

# +---------------------+
# |      Profile        |   (Durable, per user)
# |---------------------|
# | Global context      |
# | Skills (union)      |
# | Workflows (union)   |
# +---------------------+

# +---------------------+
# |      Session        |   (Live, per user + tab)
# |---------------------|
# | Workflow state      |
# | Answered turns      |
# | Current question    |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |        Running context       |   (Grows every answer)
# |------------------------------|
# | Seeded from the profile      |
# | + "Q: ... A: ..." per turn   |
# | Compacted above the ceiling  |
# +------------------------------+
#         |
#         v
#   [question / instance prompts]
