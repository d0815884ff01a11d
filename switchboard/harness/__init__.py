"""
Turn execution: retry policy (``switchboard.harness.retry``) and the
model/tool loop (``switchboard.harness.loop``).

Import the submodules directly; the backends import ``retry`` and ``loop``
imports the backends.
"""
