"""
Responder unit definitions used when an incident is confirmed.
Each entry is one unit offered to every confirmed incident, with the ranges
its distance (km) and ETA (minutes) are sampled from, and where on the map it
starts relative to the incident.
"""

from .models import UnitKind

RESPONDER_TYPES = [
    {
        "id": "AMB-001",
        "kind": UnitKind.AMBULANCE,
        "name": "North Kolkata Ambulance Unit 7",
        "contact": "102",
        "address": "Shyambazar Street",
        "distance": (1.2, 3.2),
        "eta": (3.0, 7.0),
        "offset": (-0.02, -0.02),
    },
    {
        "id": "POL-001",
        "kind": UnitKind.POLICE,
        "name": "Shyambazar Police Station",
        "contact": "100",
        "address": "Bidhan Sarani",
        "distance": (0.8, 2.3),
        "eta": (2.0, 5.0),
        "offset": (-0.015, 0.015),
    },
    {
        "id": "HOS-001",
        "kind": UnitKind.HOSPITAL,
        "name": "R.G. Kar Medical College",
        "contact": "+91 33 2555 5000",
        "address": "Belgachia Road",
        "distance": (2.5, 5.5),
        "eta": (10.0, 15.0),
        "offset": (0.03, 0.01),
    },
]
