"""
rental_modules -- domain modules of the rental ledger.

    utilities  utility bill lifecycle, allocation, posting, meter readings
    listings   listing status machine, defaults, validation, time sweep
    leasing    lease lifecycle and the lease-listing reconciler
    bulk       bulk listing/bill operations with per-item isolation
    payments   invoice balances, payment intake, invoice/payment posting

Each service owns its transaction boundary: public methods commit on
success, roll back on a failure result, and roll back and re-raise on
unexpected exceptions.  Internal ``_do_*`` methods never commit so that the
reconciler and the bulk coordinator can compose them.
"""
