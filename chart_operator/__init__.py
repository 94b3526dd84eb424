"""chart-operator migrates chart deployments to native Helm releases.

The release migration resource in `chart_operator.release_migration` moves a
chart deployment from its legacy Tiller release to a native Helm release, one
reconciliation tick at a time. The controller in `chart_operator.controller`
drives it for every Chart custom resource and retries transient failures with
bounded backoff.
"""
