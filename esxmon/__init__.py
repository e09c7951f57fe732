"""esxmon - vSphere/ESXi event listener agent.

Connects to a vSphere management endpoint, subscribes to its event stream
and turns every received event into a classified, structured record.
"""

__version__ = "0.1.0"
