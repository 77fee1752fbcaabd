"""Report to issue-tracker synchronization service"""
