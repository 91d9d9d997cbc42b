"""Core signed URL protocol, configuration and salt storage"""
