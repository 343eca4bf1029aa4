"""
RecordFlow - Utilities Package

Error handling and the pure permission model.
"""
