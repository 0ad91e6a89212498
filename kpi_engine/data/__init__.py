"""
Bundled reference data.

cluster_profiles.json holds the default cluster knowledge base loaded by
kpi_engine.services.knowledge_base.load_default_profiles().
"""
