"""
Market deployment stages

  - report.py:       MarketReport / TokenReport / ReportStore
  - roles.py:        Role / Roles
  - deployer.py:     Deployer (shared capability passed to every stage)
  - orchestrator.py: MarketOrchestrator
  - oracle.py:       PriceFeed / FallbackOracle / MarketOracle
  - listing.py:      ListingDescriptor / ListingPayload / run_listing
  - validator.py:    Validator / ValidationResult
  - setup.py:        PostDeploySetup
  - tokens.py:       deploy_test_tokens

Submodules are imported directly; this package does not re-export them
so that component models can depend on ``roles`` without pulling in the
stages.
"""
