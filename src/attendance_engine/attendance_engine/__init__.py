"""Attendance Engine package.

Time-accounting core for a mobile attendance tracker, organized by feature
modules (geofence, location, activity, attendance, realtime, ...) with a thin
Flask controller layer on top of async service and repository layers.
"""
