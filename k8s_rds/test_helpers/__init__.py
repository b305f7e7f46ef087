"""Shared helpers for testing k8s_rds"""
