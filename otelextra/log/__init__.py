"""Structured logging that also records log entries as events on trace spans."""