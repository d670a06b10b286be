"""
LabNet: SDN fabric planning and reconciliation for Proxmox VE labs.

Plans non-overlapping address space for a multi-tenant lab fabric, provisions
zones, VNets, subnets, IP sets and firewall rules on the SDN controller, and
restores the controller to the state captured before the first run.
"""

__version__ = "0.3.0"
