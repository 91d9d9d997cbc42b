"""FastAPI integration for signed URLs"""
