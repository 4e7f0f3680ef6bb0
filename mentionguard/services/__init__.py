"""MentionGuard services.

- Crisis Engine: hourly bucketing, anomaly detection, severity scoring,
  escalation and user-defined crisis rules for brand mentions
- Outbound notifications are event-driven (Kinesis or in-process queue)
"""
