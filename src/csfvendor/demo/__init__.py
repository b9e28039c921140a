"""
Demo data generator for the vendor portal.

Usage:
    from csfvendor.demo import generate_demo_data

    summary = generate_demo_data(services, vendor_email="security@vendor.example")

    # Then start the portal and open the magic link
    csfvendor serve
"""

from csfvendor.demo.generator import (
    DemoGenerator,
    DemoProfile,
    generate_demo_data,
)

__all__ = [
    "DemoGenerator",
    "DemoProfile",
    "generate_demo_data",
]
