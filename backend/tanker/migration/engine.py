# backend/tanker/migration/engine.py
"""
One-shot migration of on-device data into the remote store.

Phases run strictly in order, each finishing before the next starts:

1. export    - read every collection of the local adapter
2. transform - consolidate role records into people, build the IdMapping
3. import    - users, roles, profiles, addresses, vehicles, bookings,
               bank accounts, resolving every legacy user reference first
4. verify    - log remote row counts (informational only)

A failing record never aborts the run; it is reported and the next record
is tried. Nothing is rolled back. Users are safe to re-run (an existing email
turns the insert into an update), bookings, vehicles and bank accounts are
not: they get fresh ids and are inserted again on every run.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import ConflictException, DomainException
from ..core.resolution import Resolved
from ..models import BankAccount, Booking, CustomerUser, User, Vehicle
from ..repositories.local import LocalCollection, LocalPersistenceAdapter
from ..repositories.remote import RemotePersistenceAdapter
from ..schemas.migration import MigrationOptions, MigrationReport, MigrationValidation
from ..services.base import BaseService
from .consolidation import ConsolidatedUser, consolidate_users
from .id_mapping import IdMapping
from .report import log_report
from .resolution import LegacyUserResolver

logger = logging.getLogger(__name__)


@dataclass
class LocalExport:
    users: List[User] = field(default_factory=list)
    bookings: List[Booking] = field(default_factory=list)
    vehicles: List[Vehicle] = field(default_factory=list)
    bank_accounts: List[BankAccount] = field(default_factory=list)
    current_user: Optional[User] = None

    def counts(self) -> Dict[str, int]:
        return {
            "users": len(self.users),
            "bookings": len(self.bookings),
            "vehicles": len(self.vehicles),
            "bank_accounts": len(self.bank_accounts),
        }


class MigrationEngine(BaseService):
    """
    Export -> transform -> import -> verify.

    The target adapter must be built with the service credential tier; the
    person-level user operations it needs bypass row-level authorization.
    """

    def __init__(self, source: LocalPersistenceAdapter, target: RemotePersistenceAdapter):
        super().__init__(target)
        self.source = source
        self.target = target

    @BaseService.measure_operation("migrate")
    async def run(self, options: Optional[MigrationOptions] = None) -> MigrationReport:
        options = options or MigrationOptions()
        report = MigrationReport(dry_run=options.dry_run)
        mapping = IdMapping()

        self.log_operation("migrate", dry_run=options.dry_run, skip_existing=options.skip_existing)
        exported = await self.export(report)
        people = self.transform(exported, mapping)

        await self.import_users(people, mapping, options, report)
        resolver = LegacyUserResolver(mapping, people)
        await self.import_vehicles(exported.vehicles, resolver, mapping, options, report)
        await self.import_bookings(exported.bookings, resolver, mapping, options, report)
        await self.import_bank_accounts(exported.bank_accounts, resolver, mapping, options, report)

        if options.dry_run:
            self.logger.info("Dry run: skipping verification")
        else:
            await self.verify(report)

        report.success = not report.errors
        log_report(report, self.logger)
        return report

    # Phase 1

    async def export(self, report: MigrationReport) -> LocalExport:
        exported = LocalExport(
            users=await self._export_collection(self.source.users, report),
            bookings=await self._export_collection(self.source.bookings, report),
            vehicles=await self._export_collection(self.source.vehicles, report),
            bank_accounts=await self._export_collection(self.source.bank_accounts, report),
        )
        try:
            exported.current_user = await self.source.users.get_current_user()
        except DomainException as e:
            report.errors.append(f"Failed to read current user: {e.message}")
            self.logger.error(f"Failed to read current user: {e.message}")

        for name, count in exported.counts().items():
            self.logger.info(f"Exported {count} {name}")
        return exported

    async def _export_collection(self, collection: LocalCollection, report: MigrationReport) -> List[Any]:
        try:
            rows = await collection.load_rows()
        except DomainException as e:
            report.errors.append(f"Failed to export {collection.key}: {e.message}")
            self.logger.error(f"Failed to export {collection.key}: {e.message}")
            return []

        records = []
        for row in rows:
            try:
                records.append(collection.parse(row))
            except DomainException as e:
                row_id = row.get("id") if isinstance(row, dict) else None
                report.errors.append(f"Unreadable {collection.entity_name} {row_id}: {e.message}")
                self.logger.error(f"Unreadable {collection.entity_name} {row_id}: {e.details}")
        return records

    # Phase 2

    def transform(self, exported: LocalExport, mapping: IdMapping) -> List[ConsolidatedUser]:
        people = consolidate_users(exported.users, self.target.generate_id, mapping)

        current = exported.current_user
        if isinstance(current, CustomerUser) and current.saved_addresses:
            owner = next((p for p in people if p.email == current.contact_key), None)
            if owner is not None:
                owner.extra_addresses.extend(current.saved_addresses)
            else:
                self.logger.warning(f"Current user {current.email} is not in the users collection")

        self.logger.info(
            f"Consolidated {len(exported.users)} user records into {len(people)} unique users"
        )
        return people

    # Phase 3

    async def import_users(
        self,
        people: List[ConsolidatedUser],
        mapping: IdMapping,
        options: MigrationOptions,
        report: MigrationReport,
    ) -> None:
        for person in people:
            if options.dry_run:
                self._count_person(person, report)
                continue

            try:
                user_id = await self._import_identity(person, mapping, report)
            except Exception as e:
                person.imported = False
                for legacy_id in person.legacy_ids:
                    mapping.users.pop(legacy_id, None)
                report.errors.append(f"Failed to import user {person.email}: {str(e)}")
                self.logger.error(f"Failed to import user {person.email}: {str(e)}")
                continue

            # The person row is committed; later failures stay with their own step
            await self._import_roles(person, user_id, options, report)
            await self._import_addresses(person, user_id, options, report)

            if options.create_auth_accounts:
                report.warnings.append(
                    f"External identity not created for {person.email}; link auth_id manually"
                )

        self.logger.info(f"Imported {report.migrated.users} of {len(people)} users")

    def _count_person(self, person: ConsolidatedUser, report: MigrationReport) -> None:
        report.migrated.users += 1
        report.migrated.roles += len(set(person.roles))
        report.migrated.profiles += len(person.records)
        report.migrated.addresses += len(person.addresses())

    async def _import_identity(
        self, person: ConsolidatedUser, mapping: IdMapping, report: MigrationReport
    ) -> str:
        """Insert the person row, or update the existing one with the same email."""
        users = self.target.users
        canonical = person.canonical.model_copy(
            update={"name": person.name, "phone": person.phone, "password": person.password}
        )
        try:
            user_id = await users.insert_person(person.new_id, canonical)
        except ConflictException:
            user_id = await users.update_person_by_email(person.email, canonical)
            mapping.bind_users(person.legacy_ids, user_id)
            report.warnings.append(f"User {person.email} already exists; updated instead")
            self.logger.warning(f"User {person.email} already exists; updated {user_id}")
        report.migrated.users += 1
        return user_id

    async def _import_roles(
        self,
        person: ConsolidatedUser,
        user_id: str,
        options: MigrationOptions,
        report: MigrationReport,
    ) -> None:
        users = self.target.users
        for record in person.records:
            try:
                if await users.add_role(user_id, record.role):
                    report.migrated.roles += 1
                elif not options.skip_existing:
                    report.warnings.append(
                        f"Role {record.role} already exists for user {person.email}"
                    )
                await users.write_profile(user_id, record)
                report.migrated.profiles += 1
            except Exception as e:
                report.errors.append(
                    f"Failed to import {record.role} role for user {person.email}: {str(e)}"
                )
                self.logger.error(
                    f"Failed to import {record.role} role for user {person.email}: {str(e)}"
                )

    async def _import_addresses(
        self,
        person: ConsolidatedUser,
        user_id: str,
        options: MigrationOptions,
        report: MigrationReport,
    ) -> None:
        for address in person.addresses():
            try:
                if await self.target.users.add_address(
                    user_id, address, skip_existing=options.skip_existing
                ):
                    report.migrated.addresses += 1
            except Exception as e:
                report.errors.append(
                    f"Failed to import address '{address.address}' for user {person.email}: {str(e)}"
                )
                self.logger.error(
                    f"Failed to import address for user {person.email}: {str(e)}"
                )

    def _resolve_user(
        self,
        resolver: LegacyUserResolver,
        entity: str,
        record_id: Optional[str],
        field_name: str,
        legacy_id: Optional[str],
    ) -> Tuple[bool, Optional[str]]:
        """(resolved, new id) for one legacy user reference."""
        resolution = resolver.resolve(legacy_id)
        if isinstance(resolution, Resolved):
            if resolution.via != "id_mapping":
                self.logger.info(
                    f"{entity} {record_id}: {field_name} {legacy_id} matched by {resolution.via}"
                )
            return True, resolution.id
        return False, None

    async def import_vehicles(
        self,
        vehicles: List[Vehicle],
        resolver: LegacyUserResolver,
        mapping: IdMapping,
        options: MigrationOptions,
        report: MigrationReport,
    ) -> None:
        for vehicle in vehicles:
            try:
                ok, agency_id = self._resolve_user(
                    resolver, "Vehicle", vehicle.id, "agency_id", vehicle.agency_id
                )
                if not ok:
                    report.warnings.append(
                        f"Skipping vehicle {vehicle.id}: agency ID {vehicle.agency_id} not found in mapping"
                    )
                    continue
                new_id = self.target.generate_id()
                if not options.dry_run:
                    await self.target.vehicles.create(
                        vehicle.model_copy(update={"id": new_id, "agency_id": agency_id})
                    )
                if vehicle.id:
                    mapping.vehicles[vehicle.id] = new_id
                report.migrated.vehicles += 1
            except Exception as e:
                report.errors.append(f"Failed to import vehicle {vehicle.id}: {str(e)}")
                self.logger.error(f"Failed to import vehicle {vehicle.id}: {str(e)}")

        self.logger.info(f"Imported {report.migrated.vehicles} of {len(vehicles)} vehicles")

    async def import_bookings(
        self,
        bookings: List[Booking],
        resolver: LegacyUserResolver,
        mapping: IdMapping,
        options: MigrationOptions,
        report: MigrationReport,
    ) -> None:
        for booking in bookings:
            try:
                ok, customer_id = self._resolve_user(
                    resolver, "Booking", booking.id, "customer_id", booking.customer_id
                )
                if not ok:
                    report.warnings.append(
                        f"Skipping booking {booking.id}: customer ID {booking.customer_id} not found in mapping"
                    )
                    continue

                updates: Dict[str, Any] = {"customer_id": customer_id}
                for field_name in ("driver_id", "agency_id"):
                    legacy_id = getattr(booking, field_name)
                    if not legacy_id:
                        continue
                    ok, new_user_id = self._resolve_user(
                        resolver, "Booking", booking.id, field_name, legacy_id
                    )
                    if not ok:
                        report.warnings.append(
                            f"Booking {booking.id}: {field_name} {legacy_id} not found in mapping; cleared"
                        )
                    updates[field_name] = new_user_id

                new_id = self.target.generate_id()
                updates["id"] = new_id
                if not options.dry_run:
                    await self.target.bookings.create(booking.model_copy(update=updates))
                if booking.id:
                    mapping.bookings[booking.id] = new_id
                report.migrated.bookings += 1
            except Exception as e:
                report.errors.append(f"Failed to import booking {booking.id}: {str(e)}")
                self.logger.error(f"Failed to import booking {booking.id}: {str(e)}")

        self.logger.info(f"Imported {report.migrated.bookings} of {len(bookings)} bookings")

    async def import_bank_accounts(
        self,
        accounts: List[BankAccount],
        resolver: LegacyUserResolver,
        mapping: IdMapping,
        options: MigrationOptions,
        report: MigrationReport,
    ) -> None:
        for account in accounts:
            try:
                ok, admin_id = self._resolve_user(
                    resolver, "BankAccount", account.id, "admin_id", account.admin_id
                )
                if not ok:
                    report.warnings.append(
                        f"Skipping bank account {account.id}: admin ID {account.admin_id} not found in mapping"
                    )
                    continue
                new_id = self.target.generate_id()
                if not options.dry_run:
                    await self.target.bank_accounts.create(
                        account.model_copy(update={"id": new_id, "admin_id": admin_id})
                    )
                if account.id:
                    mapping.bank_accounts[account.id] = new_id
                report.migrated.bank_accounts += 1
            except Exception as e:
                report.errors.append(f"Failed to import bank account {account.id}: {str(e)}")
                self.logger.error(f"Failed to import bank account {account.id}: {str(e)}")

        self.logger.info(f"Imported {report.migrated.bank_accounts} of {len(accounts)} bank accounts")

    # Phase 4

    async def verify(self, report: MigrationReport) -> None:
        try:
            report.row_counts = await self.target.row_counts()
        except DomainException as e:
            report.warnings.append(f"Verification skipped: {e.message}")
            self.logger.warning(f"Verification skipped: {e.message}")
            return
        for table, count in report.row_counts.items():
            self.logger.info(f"{table} in database: {count}")

    async def validate_migration(self) -> MigrationValidation:
        """Referential checks over the remote store after a run."""
        issues = await self.target.integrity_issues()
        for issue in issues:
            self.logger.warning(issue)
        return MigrationValidation(valid=not issues, issues=issues)
