"""Reviewer roulette: review tracking, metrics aggregation, messages and Mattermost notifications."""

__version__ = "0.1.0"