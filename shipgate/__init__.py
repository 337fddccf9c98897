"""shipgate: sequential DevSecOps build pipeline runner.

Stages wrap external tools (git, a SAST scanner, the container engine, an image
vulnerability scanner, a DAST scanner, compose). The runner applies the
blocking/advisory continuation policy and aggregates a single build outcome.
"""

__version__ = "0.3.0"
