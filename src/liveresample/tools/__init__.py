"""Developer tools: debug instrumentation and the packet replay CLI."""
