# SPDX-License-Identifier: Apache-2.0
"""
vectorgate test suite.

Contract tests for the store base, the filter compiler and metric mapping,
plus scripted-client tests for the pgvector, Qdrant and Vectorize backends.
"""
