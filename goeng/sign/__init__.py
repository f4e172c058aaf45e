# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Release archive signing pipeline.

Pinned boundary:
- the signing service is opaque: it only ever sees an MSBuild props manifest
  and replaces the listed files in place;
- one signer call per phase, and the manifest for a phase is all-or-nothing.
"""
