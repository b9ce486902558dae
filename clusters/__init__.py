"""clusters/ -- Remote Kubernetes access for KSMS.

client.py builds API clients from kube-config payloads and runs the two
probes the service needs (server version, pod count). cache.py memoizes one
client per cluster id.

Layer rule: clusters/ imports only stdlib, third-party libraries, and core/.
"""
