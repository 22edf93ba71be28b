"""
HealthTrack backend package

Daily health scores per user, folded into monthly rollups for comparison.
"""
