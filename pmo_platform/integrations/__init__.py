"""External service gateways.

All outbound HTTP calls to third-party APIs go through a gateway in this
package, never via bare `requests` calls in services or blueprints. Every
call is authenticated by the gateway (token injected from config), bounded
by a timeout and translated into a typed platform exception on failure.

Current gateways:
  github_gateway.GitHubGateway: GitHub REST API v3
"""
