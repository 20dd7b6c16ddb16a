"""Terminal rendering of goal sets and execution reports.

Modules
-------
renderer
    ``GoalRenderer`` turns ``GoalSet`` and ``ExecutionReport`` into Rich
    renderables for terminal display.
"""
