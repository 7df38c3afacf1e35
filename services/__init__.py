"""
Service layer

Pure calculations and read models, no state transitions:
- OutcomeService: who wins a round
- HistoryService: resolved rounds of a match
"""
