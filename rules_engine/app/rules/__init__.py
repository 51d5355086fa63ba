"""
Rules package.

Defines the condition tree, the rule model and the engine that schedules
rules by priority tier. Evaluation annotates a per-run copy of each
condition tree with results so callers can inspect why a rule passed or
failed.

Modules of interest:
- condition: Leaf and all/any combinator nodes.
- rule: Tiered, short-circuiting evaluation of a condition tree.
- engine: Fact/rule/operator registries and the run scheduler.
- models: Events and result containers.
- notifications: Fire-and-forget subscriber lists.
"""
