"""Celery task modules"""
