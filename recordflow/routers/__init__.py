"""
RecordFlow - API Routers
"""
