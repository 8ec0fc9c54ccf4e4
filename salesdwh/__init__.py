"""
Sales Data Warehouse

Full-refresh pipeline turning CRM and ERP flat-file extracts into a star
schema: raw load, cleansing, dimensional modeling.
"""

__version__ = "1.0.0"
