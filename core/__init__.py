# core package - per-turn compilers and the turn pipeline.
# Submodules are imported directly (core.conversation, core.compass, ...);
# nothing is re-exported here so the top-level engines can import
# core.perception without pulling in the whole pipeline.
