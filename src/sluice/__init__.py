"""
Sluice: configuration-driven data pipelines over partitioned DataObjects.

Actions form a DAG and hand SubFeeds to each other in two passes: a
planning pass (init) over the whole graph, then an execution pass (exec).
"""

__version__ = "0.1.0"
