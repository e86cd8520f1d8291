"""
kubesandbox - Run test binaries inside a disposable OpenShift project

Architecture:
- Each module is self-contained with clear interfaces
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- api: Wire models shared by the runner and the executor
- auth: Bearer token generation and verification
- cleaner: Deletes the project after a delay if the runner doesn't
- cluster: Control plane operations through kubectl
- executor: Server that runs the test binaries inside the project
- middleware: Request pipeline of the executor
- readiness: Waits for the pod, the route and the server
- session: Runner that provisions the project and sends the binaries
"""

__version__ = "0.1.0"
