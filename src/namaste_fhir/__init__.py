"""
NAMASTE FHIR Gateway.

FHIR-flavoured terminology service bridging NAMASTE traditional medicine codes
(Ayurveda, Siddha, Unani) and WHO ICD-11, with ABHA token authentication.
"""

__version__ = "0.2.0"
