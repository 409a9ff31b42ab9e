"""
pipeheal: a delivery pipeline (build, containerize, deploy, verify) whose failed
stages trigger one AI-assisted remediation attempt:

- collect failure context (commits, status, build-log tail)
- prompt a generative model with an allow-listed repository snapshot
- extract a unified diff and validate it (allow-listed paths, clean apply)
- push a branch and open a pull request for human review
"""
