"""Coordinator Agent: delegates every task to the calculator agent."""
