"""HealthWatch services.

- Report Service: report store and lifecycle state machine
- Analytics Service: aggregation, Bayesian risk, hotspots, dashboard
- Action Service: administrator remediation actions
- Audit Service: hash-chained audit trail
"""
