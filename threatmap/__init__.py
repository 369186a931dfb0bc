"""
threatmap - STRIDE threat model synthesis.

Takes a component graph (from YAML, Terraform or OpenAPI), enumerates STRIDE
threats with contextual risk scores, assigns stable diagram IDs, and publishes
Mermaid/SVG/PlantUML/DOT diagrams plus an XLSX or CSV risk register.
"""

__version__ = "1.0.0"
