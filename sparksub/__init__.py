"""
sparksub: batch submission of Spark applications onto Kubernetes.

Jobs are ordered by a planner and handed to spark-submit one at a time
through a scheduler gate that empties the Spark namespace and keeps a
minimum gap between submissions.
"""

__version__ = "0.1.0"
