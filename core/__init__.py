"""core/ -- Kernel: settings and the request diagnostic context. No reverse dependencies."""
