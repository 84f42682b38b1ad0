"""
NutriClinic

A FastAPI-based system connecting patients and nutritionists: role-aware
sign-in routing, profile onboarding, appointment scheduling from weekly slot
templates, meal plans with nutrient totals, and an audited admin console.
"""

__version__ = "1.0.0"
