"""
dtn_social

A simulation framework for social-graph-aware routing in opportunistic,
delay-tolerant networks. Nodes forward buffered messages over transient
pairwise links, preferring messages that originate from or were relayed by
their social contacts.
"""

__version__ = "0.1.0"
