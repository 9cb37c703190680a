"""Multi-vendor virtual queue system (MQTT-based).

Customers join a vendor's virtual line; vendors call customers in order; every
change recomputes positions and wait-time estimates and is broadcast as a full
snapshot to the vendor console and waiting customers.

Components:
- a Queue Server (authoritative state, `QueueService` behind MQTT)
- Service Counters, one per vendor, calling customers in order
- Customer clients
- a Customer Generator (Poisson arrivals) for load testing / simulation
"""
