from __future__ import annotations

from flask import has_request_context, session

SUPPORTED_LANGS = {"fr", "en"}

I18N: dict[str, dict[str, str]] = {
    "menu.dashboard": {"fr": "Tableau de bord", "en": "Dashboard"},
    "menu.residents": {"fr": "Résidents", "en": "Residents"},
    "menu.fees": {"fr": "Frais", "en": "Fees"},
    "menu.contributions": {"fr": "Cotisations", "en": "Contributions"},
    "menu.payments": {"fr": "Paiements", "en": "Payments"},
    "menu.expenses": {"fr": "Dépenses", "en": "Expenses"},
    "menu.reports": {"fr": "Rapports", "en": "Reports"},
    "menu.incidents": {"fr": "Incidents", "en": "Incidents"},
    "menu.complaints": {"fr": "Réclamations", "en": "Complaints"},
    "menu.announcements": {"fr": "Annonces", "en": "Announcements"},
    "menu.documents": {"fr": "Documents", "en": "Documents"},
    "menu.residences": {"fr": "Résidences", "en": "Residences"},
    "menu.syndics": {"fr": "Syndics", "en": "Syndics"},
    "menu.onboarding": {"fr": "Ma résidence", "en": "My residence"},
    "auth.login": {"fr": "Connexion", "en": "Sign in"},
    "auth.logout": {"fr": "Déconnexion", "en": "Sign out"},
    "auth.password": {"fr": "Mot de passe", "en": "Password"},
    "auth.invalid_credentials": {"fr": "Identifiants invalides", "en": "Invalid credentials"},
    "auth.inactive": {"fr": "Compte désactivé", "en": "Account disabled"},
    "errors.forbidden": {"fr": "Accès refusé", "en": "Access denied"},
    "errors.not_found": {"fr": "Page introuvable", "en": "Page not found"},
    "dashboard.total_residents": {"fr": "Résidents", "en": "Residents"},
    "dashboard.cash_on_hand": {"fr": "Caisse", "en": "Cash on hand"},
    "dashboard.bank_balance": {"fr": "Banque", "en": "Bank balance"},
    "dashboard.outstanding_fees": {"fr": "Frais impayés", "en": "Outstanding fees"},
    "dashboard.open_incidents": {"fr": "Incidents ouverts", "en": "Open incidents"},
    "dashboard.fill_rate": {"fr": "Taux de recouvrement", "en": "Collection rate"},
    "dashboard.top_residents": {"fr": "Meilleurs payeurs", "en": "Top residents"},
    "dashboard.week_payments": {"fr": "Paiements de la semaine", "en": "Payments this week"},
    "dashboard.compliance": {"fr": "Taux de conformité", "en": "Compliance rate"},
    "dashboard.recent_activity": {"fr": "Activité récente", "en": "Recent activity"},
    "dashboard.no_residence": {
        "fr": "Aucune résidence associée à votre compte",
        "en": "No residence is linked to your account",
    },
    "common.all": {"fr": "Tous", "en": "All"},
    "common.amount": {"fr": "Montant", "en": "Amount"},
    "common.date": {"fr": "Date", "en": "Date"},
    "common.delete": {"fr": "Supprimer", "en": "Delete"},
    "common.description": {"fr": "Description", "en": "Description"},
    "common.due_date": {"fr": "Échéance", "en": "Due date"},
    "common.empty": {"fr": "Aucun élément", "en": "Nothing here yet"},
    "common.filter": {"fr": "Filtrer", "en": "Filter"},
    "common.name": {"fr": "Nom", "en": "Name"},
    "common.notes": {"fr": "Notes", "en": "Notes"},
    "common.resident": {"fr": "Résident", "en": "Resident"},
    "common.save": {"fr": "Enregistrer", "en": "Save"},
    "common.status": {"fr": "Statut", "en": "Status"},
    "common.title": {"fr": "Titre", "en": "Title"},
    "common.type": {"fr": "Type", "en": "Type"},
    "residents.new": {"fr": "Ajouter un résident", "en": "Add a resident"},
    "residents.phone": {"fr": "Téléphone", "en": "Phone"},
    "residents.role": {"fr": "Rôle", "en": "Role"},
    "residents.verify": {"fr": "Valider", "en": "Verify"},
    "residents.resend_code": {"fr": "Renvoyer le code", "en": "Resend code"},
    "fees.new": {"fr": "Nouveau frais", "en": "New fee"},
    "fees.bulk": {"fr": "Frais groupés", "en": "Bulk fees"},
    "fees.reason": {"fr": "Motif", "en": "Reason"},
    "fees.mark_paid": {"fr": "Marquer payé", "en": "Mark as paid"},
    "contributions.plans": {"fr": "Plans de cotisation", "en": "Contribution plans"},
    "contributions.period": {"fr": "Période", "en": "Period"},
    "contributions.start": {"fr": "Début", "en": "Start"},
    "contributions.inactive": {"fr": "inactif", "en": "inactive"},
    "contributions.deactivate": {"fr": "Désactiver", "en": "Deactivate"},
    "contributions.late_fee": {"fr": "Pénalité de retard", "en": "Late fee"},
    "contributions.generate": {"fr": "Générer les cotisations", "en": "Generate contributions"},
    "contributions.matrix": {"fr": "Suivi annuel", "en": "Yearly status"},
    "contributions.manual": {"fr": "Cotisation manuelle", "en": "Manual contribution"},
    "contributions.outstanding": {"fr": "Reste à payer", "en": "Outstanding"},
    "contributions.outstanding_months": {"fr": "Mois impayés", "en": "Unpaid months"},
    "contributions.paid": {"fr": "Payé", "en": "Paid"},
    "contributions.total_due": {"fr": "Total dû", "en": "Total due"},
    "payments.receipt": {"fr": "Reçu", "en": "Receipt"},
    "payments.method": {"fr": "Mode", "en": "Method"},
    "payments.record_cash": {"fr": "Encaisser un paiement", "en": "Record a payment"},
    "payments.declare": {"fr": "Déclarer un paiement", "en": "Declare a payment"},
    "payments.my_balance": {"fr": "Mon solde", "en": "My balance"},
    "payments.proof": {"fr": "Justificatif", "en": "Proof"},
    "payments.verify": {"fr": "Valider", "en": "Verify"},
    "payments.reject": {"fr": "Rejeter", "en": "Reject"},
    "payments.rejection_reason": {"fr": "Motif du rejet", "en": "Rejection reason"},
    "payments.allocate": {"fr": "Imputer", "en": "Allocate"},
    "payments.credit": {"fr": "Avoir", "en": "Credit"},
    "expenses.new": {"fr": "Nouvelle dépense", "en": "New expense"},
    "expenses.category": {"fr": "Catégorie", "en": "Category"},
    "expenses.approve": {"fr": "Approuver", "en": "Approve"},
    "expenses.pay": {"fr": "Payer", "en": "Pay"},
    "expenses.attachment": {"fr": "Justificatif", "en": "Attachment"},
    "reports.annual": {"fr": "Année complète", "en": "Full year"},
    "reports.opening_balance": {"fr": "Solde d'ouverture", "en": "Opening balance"},
    "reports.closing_balance": {"fr": "Solde de clôture", "en": "Closing balance"},
    "reports.income": {"fr": "Recettes", "en": "Income"},
    "reports.refunds": {"fr": "Remboursements", "en": "Refunds"},
    "reports.net_change": {"fr": "Variation nette", "en": "Net change"},
    "reports.total": {"fr": "Total", "en": "Total"},
    "reports.close": {"fr": "Clôturer le mois", "en": "Close the month"},
    "reports.closed": {"fr": "clôturé", "en": "closed"},
    "incidents.new": {"fr": "Signaler un incident", "en": "Report an incident"},
    "incidents.reporter": {"fr": "Signalé par", "en": "Reported by"},
    "incidents.assigned_to": {"fr": "Assigné à", "en": "Assigned to"},
    "incidents.photo": {"fr": "Photo", "en": "Photo"},
    "complaints.new": {"fr": "Nouvelle réclamation", "en": "New complaint"},
    "complaints.reason": {"fr": "Motif", "en": "Reason"},
    "complaints.privacy": {"fr": "Confidentialité", "en": "Privacy"},
    "complaints.about": {"fr": "Concerne", "en": "About"},
    "complaints.complainant": {"fr": "Plaignant", "en": "Complainant"},
    "complaints.anonymous": {"fr": "Anonyme", "en": "Anonymous"},
    "complaints.resolution_notes": {"fr": "Notes de résolution", "en": "Resolution notes"},
    "complaints.evidence": {"fr": "Pièces jointes", "en": "Evidence"},
    "complaints.add_evidence": {"fr": "Ajouter une preuve", "en": "Add evidence"},
    "announcements.new": {"fr": "Nouvelle annonce", "en": "New announcement"},
    "documents.files": {"fr": "Fichiers", "en": "Files"},
    "documents.approve": {"fr": "Approuver", "en": "Approve"},
    "documents.reject": {"fr": "Rejeter", "en": "Reject"},
    "documents.reason": {"fr": "Motif du rejet", "en": "Rejection reason"},
    "residences.new": {"fr": "Nouvelle résidence", "en": "New residence"},
    "residences.address": {"fr": "Adresse", "en": "Address"},
    "residences.city": {"fr": "Ville", "en": "City"},
    "residences.syndic": {"fr": "Syndic", "en": "Syndic"},
    "residences.guard": {"fr": "Gardien", "en": "Guard"},
    "onboarding.verify_email": {
        "fr": "Confirmez votre adresse email avant d'envoyer vos documents",
        "en": "Confirm your email address before sending your documents",
    },
    "onboarding.minutes": {"fr": "Procès-verbal", "en": "Minutes"},
    "onboarding.id_card": {"fr": "Carte d'identité", "en": "ID card"},
    "onboarding.cancel": {"fr": "Annuler l'envoi", "en": "Cancel submission"},
    "status.paid": {"fr": "Payé", "en": "Paid"},
    "status.unpaid": {"fr": "Impayé", "en": "Unpaid"},
    "status.overdue": {"fr": "En retard", "en": "Overdue"},
    "status.pending": {"fr": "En attente", "en": "Pending"},
    "status.partial": {"fr": "Partiel", "en": "Partial"},
    "status.cancelled": {"fr": "Annulé", "en": "Cancelled"},
    "status.verified": {"fr": "Vérifié", "en": "Verified"},
    "status.rejected": {"fr": "Rejeté", "en": "Rejected"},
    "status.approved": {"fr": "Approuvé", "en": "Approved"},
    "status.draft": {"fr": "Brouillon", "en": "Draft"},
    "status.open": {"fr": "Ouvert", "en": "Open"},
    "status.in_progress": {"fr": "En cours", "en": "In progress"},
    "status.resolved": {"fr": "Résolu", "en": "Resolved"},
    "status.closed": {"fr": "Clôturé", "en": "Closed"},
    "status.submitted": {"fr": "Soumis", "en": "Submitted"},
    "status.reviewed": {"fr": "Examiné", "en": "Reviewed"},
    "flash.saved": {"fr": "Enregistré", "en": "Saved"},
    "flash.deleted": {"fr": "Supprimé", "en": "Deleted"},
}


def get_locale() -> str:
    if not has_request_context():
        return "fr"
    lang = session.get("lang", "fr")
    if lang not in SUPPORTED_LANGS:
        return "fr"
    return lang


def translate(key: str) -> str:
    lang = get_locale()
    return I18N.get(key, {}).get(lang, key)
